"""sqld: database tables as a generic HTTP REST surface.

Exposes the tables of a MySQL/MariaDB, PostgreSQL or SQLite database through
GET/POST/PUT/DELETE on ``/{table}[/{id}]`` and, optionally, raw SQL over HTTP.
"""

__version__ = "0.1.0"
