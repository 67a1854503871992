from aiogram import Router, types
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext

from ktp_bot.states import VisitStates

router = Router()


@router.message(CommandStart())
async def start_cmd(message: types.Message, state: FSMContext) -> None:
    await state.clear()
    text = (
        "👋 Selamat datang di layanan buku tamu perpustakaan.\n\n"
        "📸 Kirim foto KTP Anda, saya akan membaca NIK, nama, tempat/tanggal lahir dan alamat.\n"
        "Data KTP hanya diproses untuk mencatat kunjungan dan tidak disebarluaskan."
    )
    await message.answer(text)
    await state.set_state(VisitStates.waiting_for_ktp)


@router.message(Command("cancel"))
async def cancel_cmd(message: types.Message, state: FSMContext) -> None:
    await state.clear()
    await state.set_state(VisitStates.waiting_for_ktp)
    await message.answer("Dibatalkan. Kirim foto KTP untuk memulai lagi.")
