"""
The MODEL layer contains pure data structures.
It has NO knowledge of the workspace tool or the hub session.
It deals with hub things, workspace variables, correspondence payloads and I/O.
"""
