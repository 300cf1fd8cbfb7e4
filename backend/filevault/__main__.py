# python -m filevault
import os

import uvicorn
from dotenv import load_dotenv


def main() -> None:
    load_dotenv()
    uvicorn.run(
        "filevault.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
        log_config=None,  # keep our root logger setup
    )


if __name__ == "__main__":
    main()
