# accounts/__init__.py
"""
Accounts app - Authentication, authorization and settings for Mizan.

This app provides:
- User: Custom user model with a role and explicit permission grants
- AppSetting: Enumerated key/value settings
- ActorContext: Authorization context passed to every command

Every mutation is authorized through ActorContext and require().
"""
