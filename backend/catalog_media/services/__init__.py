# Services package init
"""
Catalog Media Backend — Services Layer
=======================================

What:  The ingestion stages and the orchestrator that composes them.
How:   Each stage is a small class with explicit constructor arguments; the
       pipeline is assembled by the app factory and passed around, never
       imported as a global.

Service Inventory:
    - UploadAcceptor:     media type / emptiness / size gate
    - VariantTranscoder:  decode, cover-fit, quality search per variant
    - StorageWriter:      atomic multi-file write with rollback
    - StorageReclaimer:   idempotent, traversal-safe deletion report
    - MediaPipeline:      ingest / replace / discard
"""
