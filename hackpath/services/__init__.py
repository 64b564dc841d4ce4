"""
Services Package for Hackpath progression

This package contains domain services for level/hack progression:
- progress_engine: curriculum graph, unlock evaluation, local and server
  progress stores, and the anonymous-to-account migration
"""
