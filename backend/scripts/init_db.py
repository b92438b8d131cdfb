import asyncio
from backend.app.core.database import engine, init_models

async def main():
    # Safe create (only creates if missing)
    await init_models(engine)
    print("Database tables created: online_games, matchmaking_queue.")
    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
