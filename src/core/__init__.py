"""Core domain package for mintscope.

Core contains address extraction, reconstruction, verification and the
at-most-once registry without any Telegram, HTTP or storage-specific code,
keeping the detection logic portable.
"""
