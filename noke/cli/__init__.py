# noke/cli/__init__.py
