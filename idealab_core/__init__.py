"""
IdeaLab Storage Core
====================
Housekeeping and migration engine for the authoring tool's local stores.

Provides:
- Backend adapters over the local, session and blob stores
- Scanner producing size-ordered snapshots with backup/orphan classification
- Maintenance deletes over scanned records
- Migration of inline media payloads into blob storage
- Load/import bridge to the application's session importer
"""
