"""
StudyPlanner: personal course schedule with local-first storage and optional cloud sync.
"""
