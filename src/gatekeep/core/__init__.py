"""Core domain - authentication and detection logic over Protocol interfaces."""
