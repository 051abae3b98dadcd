# -*- coding: utf-8 -*-
"""
异常定义
业务异常继承 ValueError，接口层统一按 ValueError 处理
"""


class BorrowRequestError(ValueError):
    """借阅申请业务异常"""


class RequestNotFoundError(BorrowRequestError):
    """申请或图书不存在"""


class InvalidTransitionError(BorrowRequestError):
    """当前状态不允许该操作"""

    def __init__(self, request_id, current, target):
        self.request_id = request_id
        self.current = current
        self.target = target
        super().__init__(f'申请状态为「{current.label}」，无法变更为「{target.label}」')


class ValidationError(BorrowRequestError):
    """参数校验失败"""


class WeChatAPIError(Exception):
    """微信接口调用失败"""

    def __init__(self, errmsg, errcode=None):
        self.errcode = errcode
        self.errmsg = errmsg
        if errcode is None:
            super().__init__(errmsg)
        else:
            super().__init__(f'{errmsg} (errcode={errcode})')


class DataStoreError(IOError):
    """数据文件读写失败"""
