"""Code generation bridge for Proto sources.

This package runs code generation plugins that require a newer Gradle
version than the consumer project uses. It provides:
- Provisioning of a nested `codegen-workspace` Gradle build
- Relay of Proto sources into the workspace and generated sources back
- Delegated execution of the workspace's Gradle wrapper with a timeout
- Task orchestration, build events and Prometheus metrics
"""
