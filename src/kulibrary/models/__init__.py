from .base import UserBase, BookBase, Role, LoanStatus, split_authors
from .tables import User, Book, Loan, LoginSession
from .payloads import (
    LoginPayload,
    BorrowPayload,
    LoanActionPayload,
    UserInfoResp,
    MemberResp,
    BookResp,
    LoanResp,
    LoginResp,
    VerifyResp,
    LoanResultResp,
    StatsResp,
    SuccessResp,
    ErrorResp,
)
