"""Domain layer — form, rule, validation, command, lock and version models.

This layer depends only on stdlib and pydantic.
It must never import from engine, services, infrastructure, commands, or config.
"""
