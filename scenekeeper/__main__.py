"""Entry point for ``python -m scenekeeper <command>``.

Commands:
    doctor   - check Python, deps, database, narrator reachability
    migrate  - apply pending SQLite migrations
    serve    - run the FastAPI backend under uvicorn
    config   - show resolved narrator/store configuration
"""
from scenekeeper.cli import main

if __name__ == "__main__":
    main()
