"""Delegated Gradle build runner.

This module manages the workspace Gradle wrapper execution:
- Child process command derivation from the platform flag
- Debug and error log capture under the workspace `_out` directory
- Timeout enforcement with terminate, kill and reap
- Exit code handling for success/failure determination
"""
