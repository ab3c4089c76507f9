"""
                        Services Module

Contains the business logic behind the API and the scheduled jobs.

Services:
    - backup: archive codec, store and incremental backups
    - customers: customer registry and loyalty points
    - reports: sales aggregations, dashboard and Excel / CSV / PDF export
    - snapshot: database <-> Snapshot conversion
"""
