#!/usr/bin/env python3
"""交互式生成 .env 配置文件

使用方式：
    python scripts/setup_env.py

配置项与默认值直接取自 config.settings.Settings，新增配置字段后
只需要在 SECTIONS 里登记一下即可出现在向导中。
"""
import os
import sys
from typing import Callable, Dict, List, Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import Settings

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
ENV_FILE = os.path.join(PROJECT_ROOT, ".env")

# (分组标题, [(字段名, 提示)])
SECTIONS = [
    ("数据库", [("database_url", "数据库连接地址")]),
    ("日志", [
        ("log_level", "日志级别（DEBUG / INFO / WARNING）"),
        ("log_file", "日志文件路径（留空则只输出到终端）"),
    ]),
    ("预约与订单", [("ensure_order_on_booking", "创建预约时是否同步生成订单（true/false）")]),
    ("通知", [("notifications_enabled", "是否发送预约确认通知（true/false）")]),
    ("Outbox 重试", [
        ("outbox_max_attempts", "通知最大重试次数"),
        ("outbox_retry_interval_seconds", "通知重试间隔（秒）"),
    ]),
    ("排队", [
        ("queue_slot_minutes", "到店排队默认时长（分钟）"),
        ("queue_rounding_minutes", "排队开始时间取整（分钟）"),
    ]),
]


def default_for(field_name: str) -> str:
    """Settings 字段的默认值，转成 .env 里的写法。"""
    default = Settings.model_fields[field_name].default
    if default is None:
        return ""
    if isinstance(default, bool):
        return "true" if default else "false"
    return str(default)


def collect(ask: Optional[Callable[[str, str, str], str]] = None) -> Dict[str, str]:
    """按 SECTIONS 逐项询问，空输入取默认值。

    Args:
        ask: 询问函数 (env_key, 提示, 默认值) -> 输入，默认读终端

    Returns:
        {ENV_KEY: 值}
    """
    ask = ask or _ask_terminal
    answers = {}
    for _, fields in SECTIONS:
        for name, prompt in fields:
            default = default_for(name)
            answers[name.upper()] = ask(name.upper(), prompt, default).strip() or default
    return answers


def render(answers: Dict[str, str]) -> str:
    """把答案按分组渲染成 .env 文本。"""
    lines: List[str] = ["# Salon Booking 配置文件", "# 由 scripts/setup_env.py 自动生成"]
    for title, fields in SECTIONS:
        lines += ["", f"# === {title} ==="]
        lines += [f"{name.upper()}={answers.get(name.upper(), '')}" for name, _ in fields]
    return "\n".join(lines) + "\n"


def _ask_terminal(key: str, prompt: str, default: str) -> str:
    print(f"📝 {prompt}")
    hint = f" (默认: {default})" if default else ""
    return input(f"  {key}={hint}: ")


def main():
    print("=" * 60)
    print("  Salon Booking 配置向导")
    print("=" * 60)

    if os.path.exists(ENV_FILE):
        if input(f"检测到已有 .env 文件: {ENV_FILE}，是否覆盖？(y/N): ").strip().lower() != "y":
            print("已取消。")
            return

    content = render(collect())
    with open(ENV_FILE, "w", encoding="utf-8") as f:
        f.write(content)

    print(f"✅ 配置文件已生成: {ENV_FILE}")
    print("  初始化数据库: python scripts/init_db.py")
    print("  启动后台任务: python app.py")


if __name__ == "__main__":
    main()
