"""Core domain package for ghostgate.

Core contains policy evaluation, shadow history and deferred sending without
any Telegram or storage-specific code, keeping the business logic portable.
"""
