"""Filter sweep: oscillator through a lowpass, cutoff driven by an LFO.

Demonstrates the basic patching workflow:
  - Add modules to a Patch; each one is bound to the engine immediately.
  - Connect ports by address ("module/port", "module/param", "destination").
  - Every topology change triggers a full compile of the live wiring.
  - Rejected cables come back from the controller instead of raising.
"""

from patchbay import MemoryEngine, Patch, PatchController, patch_to_dot_file

engine = MemoryEngine()
patch = Patch("filter_sweep", engine=engine)

patch.add_module("oscillator", "osc-1", frequency=110.0, waveform="sawtooth")
patch.add_module("filter", "filt-1", Q=6.0)
patch.add_module("lfo", "lfo-1", frequency=0.25)

patch.connect("osc-1/audio_out", "filt-1/audio_in")
patch.connect("filt-1/audio_out", "destination")
patch.connect("lfo-1/cv_out", "filt-1/frequency")

if __name__ == "__main__":
    report = patch.compiler.last_report
    print(f"Compile #{report.generation}: {len(report.wired)} cables")
    for source, target in engine.snapshot():
        print(f"  {source} -> {target}")
    print()

    # Audio into a control input is refused by the signal rule.
    proposal = PatchController(patch).propose_connection("osc-1/audio_out", "filt-1/cv_in")
    print(f"osc-1/audio_out -> filt-1/cv_in: [{proposal.rejection.rule}] {proposal.rejection}")
    print()

    dot_path = patch_to_dot_file(patch, "build")
    print(f"DOT: {dot_path}")
