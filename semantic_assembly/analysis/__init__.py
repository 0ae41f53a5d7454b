"""Analysis modules — LLM-based topology interpretation and entity inspection."""
