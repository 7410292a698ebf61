"""
treestore CLI

Commands:
- treestore inspect - Show the compiled state tree of a registry
- treestore dispatch - Apply one named action and print the state
- treestore version - Show version information
"""

__version__ = "0.1.0"
