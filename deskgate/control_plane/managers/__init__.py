"""Workspace collaborators: plugins, MCP connectors, skills, commands, bundles
and scheduled jobs.

Each module provides async functions over a workspace root.  Functions that
touch the engine config take the ``ConfigStore`` as a parameter.  They raise
domain exceptions (``LookupError``, ``ValueError``), never HTTP errors --
that translation is the router's responsibility.
"""
