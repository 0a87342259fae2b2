# testing/__init__.py
