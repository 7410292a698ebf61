"""
Test suite for treestore.

Focus areas:
- Reducer compilation (nesting, composition, conflicts)
- Dispatch ordering and re-entrancy
- Named dispatch and error taxonomy
- Subscriptions and side effects
"""
