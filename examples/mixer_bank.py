"""Mixer bank: three detuned oscillators summed through a multi-slot mixer.

Demonstrates multi-slot sinks:
  - Each mixer channel is addressed as "mix-1/audio_in/<slot>" (1-based).
  - A slot holds one cable; a second source into the same slot is rejected.
  - Removing one cable recompiles without disturbing the other channels.
  - The patch snapshot is a plain PatchDocument that can be saved as JSON.
"""

from patchbay import ConnectionRejected, MemoryEngine, Patch, validate_patch

engine = MemoryEngine()
patch = Patch("mixer_bank", engine=engine)

patch.add_module("mixer", "mix-1", volume=-6.0)
patch.add_module("reverb", "rev-1", wet=0.3)
for slot, detune in enumerate((-7.0, 0.0, 7.0), start=1):
    osc = patch.add_module("oscillator", f"osc-{slot}", frequency=220.0, detune=detune)
    patch.connect(f"{osc.id}/audio_out", f"mix-1/audio_in/{slot}")

patch.connect("mix-1/audio_out", "rev-1/audio_in")
patch.connect("rev-1/audio_out", "destination")

if __name__ == "__main__":
    errors = validate_patch(patch.modules, patch.schemas, patch.connections.list())
    print("Patch is valid." if not errors else f"Errors: {errors}")
    print(f"Live cables: {engine.calls}")

    try:
        patch.connect("osc-3/audio_out", "mix-1/audio_in/1")
    except ConnectionRejected as e:
        print(f"Rejected ({e.rule}): {e}")

    patch.disconnect("osc-2/audio_out", "mix-1/audio_in/2")
    print(f"After removing channel 2: {engine.calls} cables")
    print()
    print(patch.snapshot().model_dump_json(indent=2))
