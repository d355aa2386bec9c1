"""
Materials module (catalog).

Scope:
- Materials CRUD with division/placement tags
- Up to five images per material, at most one primary
- Deleting a material removes its stored image files
"""
