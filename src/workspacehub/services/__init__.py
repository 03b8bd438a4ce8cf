"""
The SERVICES layer describes the external collaborators: the workspace tool
and the hub session. Only their interfaces live here.
"""
