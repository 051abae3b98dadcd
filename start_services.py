# -*- coding: utf-8 -*-
"""
统一启动脚本 - 同时启动用户服务和管理服务（管理服务负责每日归还提醒）
"""
import os
import sys
import time
import signal
import logging
import subprocess

from common.config import USER_SERVICE_PORT, ADMIN_SERVICE_PORT, setup_logging

logger = logging.getLogger(__name__)

ROOT_DIR = os.path.dirname(os.path.abspath(__file__))

SERVICES = (
    ('用户服务', 'user_service.app', USER_SERVICE_PORT),
    ('管理服务', 'admin_service.app', ADMIN_SERVICE_PORT),
)

# 进程列表
processes = []


def start_service(name, module, port):
    """以子进程方式启动服务模块"""
    logger.info("正在启动%s (端口: %s)...", name, port)
    env = os.environ.copy()
    env['PYTHONPATH'] = ROOT_DIR
    proc = subprocess.Popen([sys.executable, '-m', module], cwd=ROOT_DIR, env=env)
    processes.append((name, proc))
    return proc


def stop_all():
    """关闭所有仍在运行的服务"""
    for name, proc in processes:
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
            logger.info("%s已关闭", name)


def signal_handler(sig, frame):
    """信号处理函数 - 关闭所有服务后退出"""
    logger.info("正在关闭所有服务...")
    stop_all()
    sys.exit(0)


def main():
    setup_logging()
    print(f"""
╔══════════════════════════════════════════════════════════════╗
║                                                              ║
║     档案借阅小程序后端 - 统一启动脚本                         ║
║                                                              ║
║     用户服务: http://localhost:{USER_SERVICE_PORT:<30}║
║     管理服务: http://localhost:{ADMIN_SERVICE_PORT:<30}║
║                                                              ║
╚══════════════════════════════════════════════════════════════╝
    """)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    for name, module, port in SERVICES:
        start_service(name, module, port)
        time.sleep(2)  # 等待服务启动

    logger.info("所有服务已启动，按 Ctrl+C 停止")

    try:
        while True:
            for name, proc in processes:
                code = proc.poll()
                if code is not None:
                    logger.error("%s已退出 (返回码: %s)", name, code)
                    stop_all()
                    return code
            time.sleep(1)
    except KeyboardInterrupt:
        signal_handler(None, None)


if __name__ == '__main__':
    sys.exit(main())
