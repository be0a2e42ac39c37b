import uvicorn
import os

if __name__ == "__main__":
    print("Starting Evidence API Server...")
    print(f"Data directory: {os.environ.get('EVE_DATA_DIR', './data')}")
    print("Docs available at: http://localhost:8000/docs")

    uvicorn.run(
        "evidence.api.server:app",
        host=os.environ.get("EVE_HOST", "127.0.0.1"),
        port=int(os.environ.get("EVE_PORT", "8000")),
        reload=False
    )
