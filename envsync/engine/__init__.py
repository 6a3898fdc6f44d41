"""
Engine — ref snapshot, environment store, deployment and reconciliation.
"""
