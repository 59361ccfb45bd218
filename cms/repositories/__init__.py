# Repositories package.
#
# Each module owns all database access for one aggregate:
#
#   article_repository  — CRUD, listings, full-text search, counters and
#                         lazy index provisioning for Article
#
# Repositories are bound to an AsyncEngine and open their own sessions,
# so callers never manage transactions.
