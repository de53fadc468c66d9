"""
Diagrams - the authoring-side graph tables read by the workflow engine.
"""
