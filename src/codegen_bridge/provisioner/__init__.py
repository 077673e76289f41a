"""Workspace provisioning for delegated code generation.

This module creates the nested `codegen-workspace` Gradle build:
- Bundled template or artifact bundle extraction
- Gradle wrapper JAR restoration
- Wrapper launcher run permission

Artifacts are resolved from the local Maven repository or downloaded
from remote Maven repositories.
"""
