"""
Timetabler: weekly course timetables built from a lecture catalog.
"""
