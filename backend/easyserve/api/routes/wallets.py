"""
Provider wallet API routes.
"""
from fastapi import APIRouter, Depends, status

from easyserve.api.dependencies import get_current_actor, get_wallet_service
from easyserve.api.schemas import AmountInput, CamelModel, WalletResponse, WalletTransactionResponse
from easyserve.services.actor import Actor
from easyserve.services.wallet_service import WalletService


class WithdrawRequest(CamelModel):
    amount: AmountInput


class WithdrawResponse(CamelModel):
    message: str
    wallet: WalletResponse
    transaction: WalletTransactionResponse


# Router
router = APIRouter(prefix="/wallets", tags=["wallets"])


@router.post("", response_model=WalletResponse, status_code=status.HTTP_201_CREATED)
def open_wallet(
    actor: Actor = Depends(get_current_actor),
    service: WalletService = Depends(get_wallet_service),
) -> WalletResponse:
    """Open the calling provider's wallet. Returns the existing one if already open."""
    return WalletResponse.model_validate(service.open_wallet_for(actor))


@router.get("/me", response_model=WalletResponse)
def get_my_wallet(
    actor: Actor = Depends(get_current_actor),
    service: WalletService = Depends(get_wallet_service),
) -> WalletResponse:
    """The caller's wallet with its ledger, newest entry first."""
    wallet, transactions = service.get_wallet(actor)
    response = WalletResponse.model_validate(wallet)
    response.transactions = [WalletTransactionResponse.model_validate(t) for t in transactions]
    return response


@router.post("/me/withdraw", response_model=WithdrawResponse)
def withdraw(
    request: WithdrawRequest,
    actor: Actor = Depends(get_current_actor),
    service: WalletService = Depends(get_wallet_service),
) -> WithdrawResponse:
    """
    Withdraw from the caller's wallet.

    Errors:
    - 400: Amount not positive, or more than the balance
    - 404: Caller has no wallet
    """
    wallet, entry = service.withdraw(actor, request.amount)
    return WithdrawResponse(
        message="Withdrawal recorded",
        wallet=WalletResponse.model_validate(wallet),
        transaction=WalletTransactionResponse.model_validate(entry),
    )
