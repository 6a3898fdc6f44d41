"""
Models — value types passed between the stores, the deployer and callers.
"""
