"""
Farmbook - Source Package

Record keeping for a single farming family: a kanban task board for
field work and a bookkeeping tool for farm and household money.

DESIGN PRINCIPLES:
1. Records are plain, storage is swappable
2. AI proposes receipt data, a person confirms it
3. Work recorded offline is never lost
4. Every change is auditable
"""

__version__ = "0.1.0"
__author__ = "Farmbook Team"
