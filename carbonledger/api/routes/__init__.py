# -*- coding: utf-8 -*-
"""API routers, one module per resource. Mounted under /api by create_app."""
