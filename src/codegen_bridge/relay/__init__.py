"""Source relay between the host module and the codegen workspace.

This module copies:
- Proto sources from the module into the workspace (copy_in)
- Generated Kotlin sources from the workspace into the module (copy_out)
"""
