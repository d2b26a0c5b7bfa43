# runtime_config/__init__.py
"""
Runtime configuration distribution service.

Keep this file minimal; import from submodules directly:
    from runtime_config.main import create_app
And Uvicorn should use:
    uvicorn runtime_config.main:app
"""
