"""Reading tracker: catalog client, reading lists, streaks and recommendations."""
