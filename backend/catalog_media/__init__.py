"""
Catalog Media Backend — Application Package Initializer
========================================================

What: Image ingestion for the catalog: accept an upload, produce the sized
      variants a namespace needs, store them, and reclaim them later.
Who:  Imported by uvicorn (catalog_media.main:app), pytest, and any admin
      code that drives the MediaPipeline directly.

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │     MediaPipeline (Orchestrator)    │  ← policy lookup, ordering
    ├─────────────────────────────────────┤
    │ Acceptor │ Transcoder │ Writer │ Reclaimer │  ← one job each
    ├─────────────────────────────────────┤
    │      Schemas & Policies (Data)      │  ← pydantic models, dataclasses
    └─────────────────────────────────────┘

    Services never import from routes, and nothing below the pipeline
    knows about HTTP.
"""

__version__ = "1.0.0"
