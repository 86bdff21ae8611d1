"""Core engine for Drive Handover: traversal, batching, retries and cooldowns."""
