"""
Dropdowns module (controlled vocabularies).

Scope:
- Two families: division and placement
- Active/inactive lifecycle; soft delete flips the flag
- Permanent deletion only for inactive rows no material references
"""
