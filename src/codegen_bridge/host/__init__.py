"""Host build integration.

This module exposes what the bridge reads from the host build:
- Root project properties and the task graph (HostContext)
- The `chordsGradlePlugin` configuration block (ParametersExtension)
"""
