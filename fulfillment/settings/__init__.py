# fulfillment/settings/__init__.py

import os

settings_module = os.getenv('DJANGO_SETTINGS_MODULE', 'fulfillment.settings.local')

if settings_module.endswith('.cloud'):
    from .cloud import *
elif settings_module.endswith('.test'):
    from .test import *
else:
    from .local import *
