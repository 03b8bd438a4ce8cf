"""
The CONTROLLER layer holds the mapping engine.
It reshapes workspace arrays, runs the two transformation rules and keeps the
correspondence store in sync with the hub.
Submodules are imported explicitly; nothing is re-exported here.
"""
