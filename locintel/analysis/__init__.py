"""
Analyses over canonical venues: competition, foot traffic and local events.
"""
