from __future__ import annotations

from fastapi import APIRouter, Depends

from core.domain.entities.system_config_entity import SystemConfigEntity
from core.usecases.admin_config_use_case import AdminConfigUseCase
from workers.market_supervisor import MarketContainer

from .deps import get_market
from .dtos.pair_dtos import PairOutDTO
from .dtos.system_config_dtos import ChaosConfigOutDTO, ChaosConfigUpdateDTO, PairChaosOverrideDTO

router = APIRouter(prefix="/admin/config", tags=["admin-config"])


def _uc(market: MarketContainer) -> AdminConfigUseCase:
    return market.admin_config


async def _chaos_out(uc: AdminConfigUseCase, cfg: SystemConfigEntity) -> ChaosConfigOutDTO:
    out = ChaosConfigOutDTO.model_validate(cfg.model_dump())
    out.effective_levels = await uc.effective_levels()
    return out


@router.get("/chaos", response_model=ChaosConfigOutDTO)
async def get_chaos_config(market: MarketContainer = Depends(get_market)) -> ChaosConfigOutDTO:
    """
    Get the global chaos level and the effective level of every pair.
    """
    uc = _uc(market)
    return await _chaos_out(uc, await uc.get_runtime_config())


@router.put("/chaos", response_model=ChaosConfigOutDTO)
async def update_chaos_config(
    dto: ChaosConfigUpdateDTO,
    market: MarketContainer = Depends(get_market),
) -> ChaosConfigOutDTO:
    """
    Set the global chaos level (system_config.key == 'runtime').

    Pairs with an override keep their own level.
    """
    uc = _uc(market)
    stored = await uc.set_global_chaos_level(dto.global_chaos_level)
    return await _chaos_out(uc, stored)


@router.put("/pairs/{symbol}/chaos-override", response_model=PairOutDTO)
async def update_pair_chaos_override(
    symbol: str,
    dto: PairChaosOverrideDTO,
    market: MarketContainer = Depends(get_market),
) -> PairOutDTO:
    """
    Set or clear (level = null) a pair's chaos override.
    """
    pair = await _uc(market).set_pair_chaos_override(symbol.upper(), dto.level)
    out = PairOutDTO.model_validate(pair.model_dump())
    out.effective_chaos_level = await market.chaos.resolve(pair)
    return out
