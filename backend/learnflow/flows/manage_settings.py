from __future__ import annotations

import logging
from typing import Literal, Optional

from ..schemas import CamelModel, SettingsData
from .base import FlowContext, define_flow

logger = logging.getLogger(__name__)


class ManageSettingsInput(CamelModel):
	action: Literal["get", "set"]
	settings_data: Optional[SettingsData] = None


class ManageSettingsOutput(CamelModel):
	success: bool
	message: str
	settings: Optional[SettingsData] = None


@define_flow("manageSettings", input_model=ManageSettingsInput, output_model=ManageSettingsOutput)
async def manage_settings(inp: ManageSettingsInput, ctx: FlowContext) -> ManageSettingsOutput:
	try:
		if inp.action == "get":
			stored = ctx.app_settings.load()
			if stored is None:
				return ManageSettingsOutput(success=True, message="No settings found.", settings=SettingsData())
			return ManageSettingsOutput(
				success=True,
				message="Settings fetched successfully.",
				settings=SettingsData.model_validate(stored),
			)

		if inp.action == "set":
			if inp.settings_data is None:
				return ManageSettingsOutput(success=False, message="Settings data is missing for set action.")
			# Unset fields are dropped so a partial save never blanks stored values
			to_save = inp.settings_data.model_dump(by_alias=True, exclude_none=True)
			ctx.app_settings.merge(to_save)
			return ManageSettingsOutput(
				success=True,
				message="Settings updated successfully.",
				settings=SettingsData.model_validate(to_save),
			)
	except Exception as e:
		logger.exception("Error in manageSettings action '%s'", inp.action)
		return ManageSettingsOutput(success=False, message=f"An error occurred: {e}")

	return ManageSettingsOutput(success=False, message="Unsupported action.")
