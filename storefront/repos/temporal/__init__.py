"""
Temporal activity wrappers and workflow proxies.

Intentionally empty: importing the activity wrappers pulls in Minio,
asyncpg and httpx, which must stay out of the workflow sandbox. Import
storefront.repos.temporal.activities from the worker and
storefront.repos.temporal.proxies from workflows.
"""
