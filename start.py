# start.py
# 启动命令：python start.py
import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=os.getenv("BIND_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8000")),
        reload=os.getenv("RELOAD") == "1",
        workers=1,
        loop="asyncio",
        timeout_keep_alive=30,
        limit_concurrency=200,
        limit_max_requests=5000,
        backlog=2048,
    )
