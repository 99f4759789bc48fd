"""Domain Layer: models, ports (interfaces), events and error kinds.

Has no dependencies on infrastructure code.
"""
