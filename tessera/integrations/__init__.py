"""
Tessera framework integrations.

Each submodule depends on an optional extra and is imported explicitly:

    from tessera.integrations.fastapi import SessionDependency
"""
