"""
Connector Infrastructure Package
Outbound messaging integrations (email and SMS)
"""
