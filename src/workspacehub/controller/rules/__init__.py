"""
The two transformation rules: hub -> workspace (previews) and
workspace -> hub (elements, parameters and value sets).
"""
