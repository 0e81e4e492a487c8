"""
File families the carving engine accepts in its ``fileopt`` menu.

These are engine family names, not arbitrary file extensions: for example
``zip`` also covers OOXML documents and ``doc`` covers every OLE container.
"""

from typing import FrozenSet


KNOWN_EXTENSIONS: FrozenSet[str] = frozenset("""
    1cd 3dm 3ds 7z a abcdp ablk ace ado afdesign ahn aif all als amd amr apa
    ape apple asf asl asm atd ats au axp bac bad bdm berkeley bfa bim bin bkf
    bld blend bmp bpg bvr bz2 c4d cab caf cam catdrawing cdt che chm class cm
    compress cow cpi crw csh cwk d2s dad dar dat dbf dbn dcm ddf dex dim dir
    djv dmp doc dovecot dpx drw ds2 dsc dss dst dta dump dv dvi dvr dwg dxf
    e01 ecryptfs edb elf emf ess evt exe exs ext fat fbf fbk fcp fcs fdb fds
    fh10 fh5 fit fits flac flp flv fm fob fos fp5 fp7 freeway frm fs fwd gam
    gct gho gi gif gm6 gp2 gp5 gpg gpx gsm gz hdf hdr hds hfsp hm hr9 http ibd
    icc icns ico idx ifo imb indd info iso it itu jks jpg jsonlz4 kdb kdbx key
    ldf lit lnk logic lso luks lxo lzh lzo m2ts mat max mb mcd mdb mdf mfa mfg
    mid mig mk5 mkv mlv mobi mov mp3 mpg mpl mrw msa mus mxf myo mysql nd2 nes
    njx nk2 nsf oci ogg one orf paf pap par2 pcap pcb pct pcx pdb pdf pds pf
    pfx pgp phn php pl plist plr png prc prt ps psb psd psf psp pst ptb ptf
    pyc pzf pzh qbb qdf qkt qxd r3d ra raf rar raw rdc reg res rfp riff rlv rm
    rns rpm rw2 rx2 save ses sgcta shn sib sit skd skp snag snz sp3 spe spf
    sqlite sqm stl studio sub svg swf tar tax tg tib tif tm tph tpl ts ttf txt
    tz v2i vault vdj vfb vmg vmx vnc vs vvv wdp wee wim win wks wld wmf wnk
    woff wpb wpd wtv wv x3f x3i x4a xar xcf xfi xfs xm xml xpt xsv xv xz z2d
    zcode zip zpr
""".split())


def is_valid_extension(extension: str) -> bool:
    """Return True if the engine knows the given file family."""
    return extension.strip().lower() in KNOWN_EXTENSIONS
