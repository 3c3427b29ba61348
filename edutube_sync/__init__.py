# edutube_sync/__init__.py
# Description: Synchronization core for the course catalog: course store client, local mirror,
# reconciler, poller and view projection.
#
__version__ = "0.1.0"
