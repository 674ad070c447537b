"""
CapacityHub - Capacity Allocation & Conflict Engine

This package contains the core of the resource-planning dashboard:
- domain: Resource, Project and Allocation models
- engine: Week grid, capacity model, conflict detection, edit validation
- sync: Optimistic edit manager (apply, persist, retry, rollback, reconcile)
- events: Event Bus for derived-state consumers
- storage: Allocation store collaborator (in-memory, HTTP)
- platform: Cross-cutting concerns (configuration, logging)
"""

__version__ = "0.1.0"
