"""Core domain package for the QQ/Telegram bridge.

Core holds linking, deletion reconciliation, input correlation and setup logic
without any Telethon, QQ-client or storage-specific code.
"""
