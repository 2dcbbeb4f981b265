"""chat_relay 起動スクリプト"""
import sys
from pathlib import Path

# プロジェクトルートをPYTHONPATHに追加
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

if __name__ == "__main__":
    import uvicorn

    from chat_relay.config import load_config

    port = load_config().port
    uvicorn.run("chat_relay.main:create_app", factory=True, host="0.0.0.0", port=port, reload=False)
