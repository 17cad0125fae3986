"""Version metadata, import-safe for routers and the app factory"""

PROJECT_NAME = "Liveboard"
VERSION = "1.0.0"
