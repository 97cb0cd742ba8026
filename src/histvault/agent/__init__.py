"""
Command Wizard Agent

Natural-language to shell command generation:
- core: wizard pipeline, command cache, generation backends, schemas
- retrieval: keyword extraction for history context
"""
