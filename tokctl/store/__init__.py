"""SQLite cache of usage events: opening and migrating, writes, and report queries."""