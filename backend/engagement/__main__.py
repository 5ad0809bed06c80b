"""Run the API with uvicorn: python -m engagement"""

import os

import uvicorn


def main():
    uvicorn.run(
        "engagement.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,  # keep the JSON logging set up by engagement.main
    )


if __name__ == "__main__":
    main()
