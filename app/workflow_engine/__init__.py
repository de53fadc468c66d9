"""
Workflow Engine - a database-backed state machine for diagram workflows.

Runs instances of editor-drawn diagrams (triggers, decisions, AND/OR joins,
sends, human approvals) with every step persisted in the Django database.
"""
