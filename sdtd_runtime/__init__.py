"""7 Days to Die dedicated server entrypoint.

Provides:
* server file provisioning through DepotDownloader with a manifest keyed cache
* serverconfig.xml merging from defaults, ``SETTING_*`` variables and forced values
* process supervision with console driven graceful shutdown and scheduled restart
* a console based health check
"""

__version__ = "1.0.0"
