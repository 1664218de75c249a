"""
Card price sync pipeline.

Modules:
    ndjson: Newline-delimited JSON helpers shared by the stages
    runner: Orchestrator that runs the stages in order and records each run
    scheduler: APScheduler integration for the daily sync
    cleanup: Work directory cleanup
    notify: E-mail / log notifications for sync outcomes

Subpackages:
    extractors: Feed download, card filter, price extractor
    transformers: External sort and streaming merge-join
    loaders: Price history merge and idempotent card upserts
    enrichment: Card image lookup

Architecture:
    Every stage is a restartable batch step that reads the files the
    previous stage wrote to the work directory:

    1. Download - Stream both feeds to disk with retry logic
    2. Filter / Extract - Keep canonical cards and their latest prices
    3. Sort - Order both files by uuid (in memory or external merge sort)
    4. Merge - Inner-join cards with prices in one pass
    5. Load - Fold each snapshot into stored history and upsert by uuid
    6. Images - Fill missing card images
    7. Cleanup - Empty the work directory

Usage:
    from ingestion.runner import SyncRunner

    result = await SyncRunner(logger=setup_logging()).run()
    print(f"Loaded {result['records_loaded']} cards")
"""
