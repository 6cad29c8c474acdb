"""
PDF Tracker Backend - barcode stamping service for uploaded PDFs

This package provides a FastAPI-based web service that stamps every page of an
uploaded PDF with a unique tracking code. It enables:

- PDF uploads with content type and size validation
- Sequential content identifiers of the form PREFIX-MMDDYY-NNNNN
- Code-128 barcode, identifier and date overlays on every page
- A trailing summary page listing every identifier for manual tracking
- Bookkeeping that maps identifiers back to the generated file

Key Components:
    - identifiers: Identifier generation and sequence state
    - barcodes: Code-128 raster rendering
    - compositor: Per-page overlay composition
    - summary: Summary page builder
    - assembler: In-memory document assembly
    - stamp_manager: Upload validation, publication and bookkeeping
    - database: SQLite run records and durable counter state
    - main: FastAPI application and HTTP endpoint definitions

Usage:
    Run the API server with:
        uvicorn pdf_tracker_backend.main:app --reload --host 0.0.0.0 --port 3000
"""
